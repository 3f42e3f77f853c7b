"""
Process-wide clients, built once in main.startup_event and stored on
app.state. Routes receive them through these dependencies so tests can swap
them with app.dependency_overrides.
"""
from fastapi import Request

from shared.config.settings import Settings, settings


def get_payment_gateway(request: Request):
    return request.app.state.payment_gateway


def get_notifier(request: Request):
    return request.app.state.notifier


def get_task_runner(request: Request):
    return request.app.state.task_runner


def get_settings() -> Settings:
    return settings
