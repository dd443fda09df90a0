"""Slack notifications for bookings and emergency calls."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote

import requests

from errors import CollaboratorFailure

logger = logging.getLogger(__name__)

SLACK_API_BASE_URL = "https://slack.com/api"


class SlackNotifier:
    """Posts plain-text messages through the Slack Web API (`chat.postMessage`)."""

    def __init__(self, token: str, channel: str, session: Any = None, timeout: float = 10.0,
                 base_url: str = SLACK_API_BASE_URL):
        self.token = token
        self.channel = channel
        self.session = session or requests.Session()
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def notify(self, text: str) -> Dict[str, Any]:
        return self.post_message(self.channel, text)

    def post_message(self, channel: str, text: str) -> Dict[str, Any]:
        try:
            resp = self.session.post(
                f"{self.base_url}/chat.postMessage",
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Content-Type": "application/json; charset=utf-8",
                },
                json={"channel": channel, "text": text},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise CollaboratorFailure(f"Slack request failed: {exc}") from exc

        if resp.status_code != 200:
            raise CollaboratorFailure(f"Slack returned HTTP {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise CollaboratorFailure("Slack returned a non-JSON body") from exc
        # Slack reports API errors with HTTP 200 and ok=false
        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error") if isinstance(body, dict) else None
            raise CollaboratorFailure(f"Slack API error: {error or 'unknown'}")
        logger.info("Slack message sent to channel %s", channel)
        return body


def build_notifier(settings) -> Optional[SlackNotifier]:
    if not (settings.slack_bot_token and settings.slack_channel_id):
        logger.info("Slack not configured - notifications disabled")
        return None
    return SlackNotifier(settings.slack_bot_token, settings.slack_channel_id, timeout=settings.slack_timeout_s)


def _display(value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    return text or "Unknown"


def format_coordinate(value: float) -> str:
    # 57.0 prints as "57", matching how browsers render the same number
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def maps_link(lat: float, lng: float) -> str:
    return ("https://www.google.com/maps/search/?api=1&query="
            f"{quote(format_coordinate(lat), safe='')},{quote(format_coordinate(lng), safe='')}")


def format_emergency_message(name, phone, origin, doctors: Iterable[Dict[str, Any]]) -> str:
    lat, lng = format_coordinate(origin.lat), format_coordinate(origin.lng)
    nearest = "\n".join(
        f"- {_display(d.get('name'))} ({d['distanceKm']:.2f} km away)" for d in doctors
    )
    return (
        "\U0001F6A8 EMERGENCY CALL: Patient needs immediate medical assistance!\n\n"
        f"Name: {_display(name)}\n"
        f"Phone: {_display(phone)}\n"
        f"Location: {lat}, {lng}\n"
        f"Map: {maps_link(origin.lat, origin.lng)}\n\n"
        f"Nearest Doctors:\n{nearest}\n\n"
        "Please respond urgently to this emergency call."
    )


def format_booking_message(appointment, doctor=None, patient=None) -> str:
    return (
        "New appointment booked!\n"
        f"Patient: {_display((patient or {}).get('name'))}\n"
        f"Doctor: {_display((doctor or {}).get('name'))}\n"
        f"Date: {appointment.get('date')}\n"
        f"Time: {appointment.get('time')}\n"
        f"Status: {appointment.get('status') or 'pending'}"
    )
