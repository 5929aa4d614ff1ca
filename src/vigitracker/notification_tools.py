"""Notification tools the SOS flow lets Gemini call.

Delivery is simulated: each tool validates its arguments, prints what it
would have sent and reports success.
"""

from __future__ import annotations

from google.genai import types as genai_types
from pydantic import BaseModel, EmailStr


class MessageArgs(BaseModel):
    to: str
    message: str


class EmailArgs(BaseModel):
    to: EmailStr
    subject: str
    body: str


def send_sms(to: str, message: str) -> dict:
    """Send an SMS message to a phone number."""
    args = MessageArgs(to=to, message=message)
    print(f'SIMULATING SMS to {args.to}: "{args.message}"', flush=True)
    return {"success": True}


def send_whatsapp(to: str, message: str) -> dict:
    """Send a WhatsApp message to a phone number."""
    args = MessageArgs(to=to, message=message)
    print(f'SIMULATING WhatsApp to {args.to}: "{args.message}"', flush=True)
    return {"success": True}


def send_email(to: str, subject: str, body: str) -> dict:
    """Send an email to an address."""
    args = EmailArgs(to=to, subject=subject, body=body)
    print(
        f"SIMULATING Email to {args.to}:\nSubject: {args.subject}\nBody: {args.body}",
        flush=True,
    )
    return {"success": True}


# ── Gemini Tool Declarations ─────────────────────────────────────────────

SOS_TOOLS = [
    genai_types.FunctionDeclaration(
        name="send_sms",
        description="Sends an SMS message to a specified phone number.",
        parameters={
            "type": "OBJECT",
            "properties": {
                "to": {"type": "STRING", "description": "The recipient's phone number."},
                "message": {"type": "STRING", "description": "The content of the SMS message."},
            },
            "required": ["to", "message"],
        },
    ),
    genai_types.FunctionDeclaration(
        name="send_whatsapp",
        description="Sends a WhatsApp message to a specified phone number.",
        parameters={
            "type": "OBJECT",
            "properties": {
                "to": {"type": "STRING", "description": "The recipient's phone number."},
                "message": {"type": "STRING", "description": "The content of the WhatsApp message."},
            },
            "required": ["to", "message"],
        },
    ),
    genai_types.FunctionDeclaration(
        name="send_email",
        description="Sends an email to a specified address.",
        parameters={
            "type": "OBJECT",
            "properties": {
                "to": {"type": "STRING", "description": "The recipient's email address."},
                "subject": {"type": "STRING", "description": "The subject of the email."},
                "body": {"type": "STRING", "description": "The body content of the email."},
            },
            "required": ["to", "subject", "body"],
        },
    ),
]

SOS_HANDLERS = {
    "send_sms": lambda a: send_sms(a["to"], a["message"]),
    "send_whatsapp": lambda a: send_whatsapp(a["to"], a["message"]),
    "send_email": lambda a: send_email(a["to"], a["subject"], a["body"]),
}
