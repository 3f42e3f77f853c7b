"""HTML bodies for transactional emails."""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from html import escape

from shared.config.settings import Settings

from .schemas import OrderConfirmationPayload

PAYMENT_METHOD_LABELS = {
    "cash_on_delivery": "Cash on Delivery",
    "gateway": "Prepaid Payment (Razorpay)",
}


def format_inr(amount: Decimal) -> str:
    """₹ with Indian digit grouping: 1234567.5 -> ₹12,34,567.50"""
    value = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    whole, _, fraction = f"{abs(value):.2f}".partition(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    return f"{sign}₹{whole}.{fraction}"


def format_order_date(value: datetime) -> str:
    return f"{value.day} {value:%B %Y}"


def order_confirmation_subject(payload: OrderConfirmationPayload) -> str:
    return f"Order Confirmation - {payload.order_number}"


def _item_row(item) -> str:
    image = ""
    if item.image:
        image = (
            '<div style="flex-shrink: 0;">'
            f'<img src="{escape(item.image)}" alt="{escape(item.name)}" '
            'style="width: 80px; height: 80px; object-fit: cover; border-radius: 8px;" />'
            "</div>"
        )
    return f"""
        <div style="display: flex; gap: 15px; padding: 15px; border-bottom: 1px solid #e5e7eb;">
          {image}
          <div style="flex: 1;">
            <p style="margin: 0 0 5px 0; font-weight: 600;">{escape(item.name)}</p>
            <p style="margin: 0; font-size: 14px; color: #6b7280;">
              Size: {escape(item.size or "-")} &times; Quantity: {item.quantity}
            </p>
            <p style="margin: 5px 0 0 0; font-weight: 600; color: #14b8a6;">{format_inr(item.total_price)}</p>
          </div>
        </div>"""


def render_order_confirmation(payload: OrderConfirmationPayload, settings: Settings) -> str:
    store = escape(settings.store_name)
    address = payload.shipping_address
    payment_label = PAYMENT_METHOD_LABELS.get(payload.payment_method, payload.payment_method)
    tax_line = f'<p style="margin: 5px 0;">Tax: {format_inr(payload.tax)}</p>' if payload.tax > 0 else ""
    shipping_line = (
        f'<p style="margin: 5px 0;">Shipping: {format_inr(payload.shipping_cost)}</p>'
        if payload.shipping_cost > 0
        else ""
    )
    items = "".join(_item_row(item) for item in payload.items)

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Order Confirmation</title></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background-color: #14b8a6; color: white; padding: 20px; text-align: center;">
    <h1 style="margin: 0;">{store}</h1>
    <p style="margin: 10px 0 0 0;">Order Confirmation</p>
  </div>
  <div style="background-color: #f9fafb; padding: 30px;">
    <p>Dear {escape(payload.customer_name)},</p>
    <p>Thank you for your order! We've received your order and will begin processing it shortly.</p>
    <div style="background-color: white; padding: 20px; border-left: 4px solid #14b8a6;">
      <h2 style="margin-top: 0; color: #14b8a6;">Order Details</h2>
      <p><strong>Order Number:</strong> {escape(payload.order_number)}</p>
      <p><strong>Order Date:</strong> {format_order_date(payload.order_date)}</p>
      <p><strong>Payment Method:</strong> {escape(payment_label)}</p>
    </div>
    <div style="background-color: white; padding: 20px;">
      <h3 style="margin-top: 0; color: #14b8a6;">Order Items</h3>
      {items}
    </div>
    <div style="background-color: white; padding: 20px;">
      <h3 style="margin-top: 0; color: #14b8a6;">Shipping Address</h3>
      <p>{escape(address.address)}</p>
      <p>{escape(address.city)}, {escape(address.state)} {escape(address.pincode)}</p>
      <p>{escape(address.country)}</p>
    </div>
    <div style="background-color: white; padding: 20px; text-align: right;">
      <p style="margin: 5px 0;">Subtotal: {format_inr(payload.subtotal)}</p>
      {tax_line}
      {shipping_line}
      <p style="font-size: 18px; font-weight: bold; color: #14b8a6;">Total: {format_inr(payload.total_amount)}</p>
    </div>
    <p style="font-size: 14px;"><strong>Estimated Delivery:</strong> 5-7 business days</p>
    <p style="font-size: 14px; color: #6b7280;">
      If you have any questions, please contact us at {escape(settings.support_email)}
    </p>
  </div>
</body>
</html>"""


def welcome_subject(settings: Settings) -> str:
    return f"Welcome to {settings.store_name} - Your Account is Ready!"


def render_welcome(customer_name: str, settings: Settings) -> str:
    store = escape(settings.store_name)
    site = escape(settings.site_url)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Welcome to {store}</title></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background-color: #14b8a6; color: white; padding: 30px; text-align: center;">
    <h1 style="margin: 0;">{store}</h1>
    <p style="margin: 10px 0 0 0;">Welcome to Our Family!</p>
  </div>
  <div style="background-color: white; padding: 40px;">
    <h2 style="color: #14b8a6;">Account Created Successfully!</h2>
    <p>Dear <strong>{escape(customer_name)}</strong>,</p>
    <p>Thank you for joining {store}! You can now track your orders from placement to delivery
       and manage your shipping addresses from your account page.</p>
    <p style="text-align: center;">
      <a href="{site}" style="background-color: #14b8a6; color: white; padding: 15px 40px; text-decoration: none;">
        Start Shopping Now
      </a>
    </p>
    <p style="font-size: 14px; color: #6b7280;">
      Need help? Email <a href="mailto:{escape(settings.support_email)}">{escape(settings.support_email)}</a>
    </p>
  </div>
</body>
</html>"""
