"""AI flows: SOS emergency, device report, geofence suggestions, trip summary.

Each flow validates its input, renders a fixed prompt, calls Gemini and
validates the answer. Flows take an optional client so callers (and tests)
can supply their own; by default a shared ``GeminiClient`` is created on
first use.
"""

from __future__ import annotations

import json
import os
from typing import Protocol

from pydantic import BaseModel, Field, ValidationError

from vigitracker.gemini_client import GeminiClient
from vigitracker.notification_tools import SOS_HANDLERS, SOS_TOOLS

SOS_FALLBACK_MESSAGE = (
    "SOS alert received. Emergency contacts have been notified and help is on "
    "the way to your location."
)
SOS_EMAIL_SUBJECT = "SOS Alert Triggered!"


class FlowError(RuntimeError):
    """The generation service returned nothing usable for a flow."""


class GenerationClient(Protocol):
    def generate_text(self, prompt: str, *, flow: str, tools=None, handlers=None,
                      temperature: float = 0.3, max_tokens: int = 1024) -> str | None: ...

    def generate_json(self, prompt: str, schema, *, flow: str,
                      temperature: float = 0.3, max_tokens: int = 2048): ...


_client: GeminiClient | None = None


def _get_client() -> GeminiClient:
    global _client
    if _client is None:
        _client = GeminiClient()
    return _client


# ── Schemas ──────────────────────────────────────────────────────────────

class GpsPoint(BaseModel):
    latitude: float = Field(ge=-90, le=90, description="The latitude coordinate.")
    longitude: float = Field(ge=-180, le=180, description="The longitude coordinate.")
    timestamp: str = Field(description="The timestamp of the GPS reading (ISO 8601 format).")


class HandleSosEmergencyInput(BaseModel):
    latitude: float = Field(ge=-90, le=90, description="The latitude of the emergency location.")
    longitude: float = Field(ge=-180, le=180, description="The longitude of the emergency location.")
    message: str | None = Field(default=None, description="Optional message from the user.")


class HandleSosEmergencyOutput(BaseModel):
    confirmation_message: str


class GenerateDeviceReportInput(BaseModel):
    device_id: str = Field(min_length=1, description="The ID of the device to generate a report for.")
    user_id: str = Field(min_length=1, description="The ID of the user who owns the device.")
    timeframe: str = Field(min_length=1, description='The timeframe for the report (e.g., "7d", "30d").')


class GenerateDeviceReportOutput(BaseModel):
    report: str = Field(description="A comprehensive, human-readable report summarizing the device's activity.")


class SuggestGeofencesFromHistoryInput(BaseModel):
    device_id: str = Field(min_length=1)
    gps_history: list[GpsPoint]


class GeofenceSuggestion(BaseModel):
    name: str = Field(description="The name of the geofence suggestion.")
    latitude: float = Field(ge=-90, le=90, description="The latitude of the geofence center.")
    longitude: float = Field(ge=-180, le=180, description="The longitude of the geofence center.")
    radius: float = Field(gt=0, description="The radius of the geofence in meters.")
    description: str | None = Field(default=None, description="Optional description of the geofence suggestion.")


class SuggestGeofencesFromHistoryOutput(BaseModel):
    geofence_suggestions: list[GeofenceSuggestion] = Field(
        min_length=3, max_length=5, description="The suggested geofence zones."
    )


class SummarizeDeviceTripInput(BaseModel):
    device_id: str = Field(min_length=1)
    gps_data: list[GpsPoint]


class SummarizeDeviceTripOutput(BaseModel):
    summary: str = Field(description="A human-readable summary of the device trip.")


# ── Prompt templates ─────────────────────────────────────────────────────

SOS_PROMPT = """You are an emergency response assistant for the VigiTracker app. A user has triggered an SOS alert.

Your task is to immediately notify emergency contacts using all available tools and then generate a confirmation message for the user.

Emergency details:
- Location: Latitude {latitude}, Longitude {longitude}
- User message: {message}

Emergency Contacts:
- SMS & WhatsApp: {phone}
- Email: {email}

Instructions:
1.  Construct a clear emergency message containing the location and the user's message.
2.  Use the send_sms tool to send the alert to {phone}.
3.  Use the send_whatsapp tool to send the same alert to {phone}.
4.  Use the send_email tool to send the alert to {email} with a subject line of "{subject}".
5.  After using the tools, generate a confirmation message for the user, assuring them that alerts have been dispatched to their emergency contacts and help is on the way to their location. Keep the confirmation under 50 words."""

REPORT_PROMPT = """You are an AI assistant for a fleet tracking system called VigiTracker.

Your task is to generate a summary report for a specific device based on its recent activity.
The user wants a report for Device ID: {device_id} for the last {timeframe}.

Here is some example data you might receive (this is a placeholder, you should act as if you have access to real data):
- Total distance traveled: 2,345 km
- Number of trips: 58
- Geofence alerts: 12 (8 entries, 4 exits)
- Most visited geofence: "Main Warehouse"
- Device offline instances: 2 (Total offline time: 3 hours)
- Average trip duration: 45 minutes

Based on this kind of data, generate a concise, professional, and easy-to-read report.
The report should be a single paragraph. Start with a clear topic sentence summarizing the device's overall performance.
Include key statistics and highlight any notable events or potential areas for concern (like frequent offline instances).
Assume the device is a commercial vehicle.

Example Output Structure:
"Over the past 30 days, Device [Device Name/ID] has been highly active, covering a total distance of [Total Distance]. It completed [Number of Trips] trips with an average duration of [Average Duration]. The device triggered [Number of Geofence Alerts] geofence alerts, with the most frequent activity at "[Most Visited Geofence]". There were [Number of Offline Instances] instances of the device going offline, which may warrant further investigation."

Now, generate the report for device {device_id}."""

GEOFENCE_PROMPT = """You are an expert system for suggesting geofences based on device GPS history data.

Analyze the provided GPS history and identify potential areas where the device frequently visits or stays for extended periods.
These areas are good candidates for geofences. Suggest at least three geofences, but no more than five.

The GPS history is provided as an array of latitude, longitude, and timestamp values.

Format your output as a JSON array of geofence suggestions, including the name, latitude, longitude, radius (in meters), and a brief description for each suggestion.

Here is the GPS history data:
Device ID: {device_id}
GPS History: {gps_history}

Ensure the output is a valid JSON according to the following schema:
{schema}"""

TRIP_PROMPT = """You are an AI assistant that summarizes device trips based on GPS data.

Given the following GPS data for device ID {device_id}, generate a concise and readable summary of the device's journey:

GPS Data:
{points}

Summary:"""


def sos_contacts() -> tuple[str, str]:
    """(phone, email) notified by the SOS flow."""
    return (
        os.getenv("SOS_CONTACT_PHONE", "+15550100"),
        os.getenv("SOS_CONTACT_EMAIL", "sos-desk@example.com"),
    )


def render_sos_prompt(data: HandleSosEmergencyInput) -> str:
    phone, email = sos_contacts()
    return SOS_PROMPT.format(
        latitude=data.latitude,
        longitude=data.longitude,
        message=f'"{data.message}"' if data.message else "No message provided.",
        phone=phone,
        email=email,
        subject=SOS_EMAIL_SUBJECT,
    )


def render_report_prompt(data: GenerateDeviceReportInput) -> str:
    return REPORT_PROMPT.format(device_id=data.device_id, timeframe=data.timeframe)


def render_geofence_prompt(data: SuggestGeofencesFromHistoryInput) -> str:
    return GEOFENCE_PROMPT.format(
        device_id=data.device_id,
        gps_history=json.dumps([p.model_dump() for p in data.gps_history]),
        schema=json.dumps(SuggestGeofencesFromHistoryOutput.model_json_schema()),
    )


def render_trip_prompt(data: SummarizeDeviceTripInput) -> str:
    points = "\n".join(
        f"- Timestamp: {p.timestamp}, Latitude: {p.latitude}, Longitude: {p.longitude}"
        for p in data.gps_data
    )
    return TRIP_PROMPT.format(device_id=data.device_id, points=points)


# ── Flows ────────────────────────────────────────────────────────────────

def _generate_output(client: GenerationClient, prompt: str, schema, *, flow: str, **kwargs):
    """Structured generation; schema-invalid output surfaces as FlowError."""
    try:
        return client.generate_json(prompt, schema, flow=flow, **kwargs)
    except ValidationError as e:
        raise FlowError(f"{flow}: output failed schema validation ({e.error_count()} errors)") from e


def handle_sos_emergency(
    payload: HandleSosEmergencyInput | dict,
    client: GenerationClient | None = None,
) -> HandleSosEmergencyOutput:
    """Notify the emergency contacts through the tools and confirm to the user."""
    data = HandleSosEmergencyInput.model_validate(payload)
    client = client or _get_client()
    print(f"[sos] SOS triggered at {data.latitude}, {data.longitude}", flush=True)
    text = client.generate_text(
        render_sos_prompt(data),
        flow="handle_sos_emergency",
        tools=SOS_TOOLS,
        handlers=SOS_HANDLERS,
        temperature=0.2,
        max_tokens=512,
    )
    confirmation = (text or "").strip()
    if not confirmation:
        print("[sos] no confirmation from Gemini, using fallback", flush=True)
        confirmation = SOS_FALLBACK_MESSAGE
    return HandleSosEmergencyOutput(confirmation_message=confirmation)


def fallback_report(data: GenerateDeviceReportInput) -> str:
    return (
        f"A report for device {data.device_id} over the last {data.timeframe} could not be "
        "generated right now. Device activity is still being recorded; please regenerate "
        "the report in a few minutes."
    )


def generate_device_report(
    payload: GenerateDeviceReportInput | dict,
    client: GenerationClient | None = None,
) -> GenerateDeviceReportOutput:
    """Single-paragraph narrative report for a device.

    No telemetry is read: the prompt carries illustrative statistics and the
    model writes a plausible report from them.
    """
    data = GenerateDeviceReportInput.model_validate(payload)
    client = client or _get_client()
    output = _generate_output(
        client,
        render_report_prompt(data),
        GenerateDeviceReportOutput,
        flow="generate_device_report",
        temperature=0.4,
        max_tokens=1024,
    )
    if output is None or not output.report.strip():
        print(f"[report] empty output for {data.device_id}, using fallback", flush=True)
        return GenerateDeviceReportOutput(report=fallback_report(data))
    return output


def suggest_geofences_from_history(
    payload: SuggestGeofencesFromHistoryInput | dict,
    client: GenerationClient | None = None,
) -> SuggestGeofencesFromHistoryOutput:
    """Three to five geofence suggestions from a device's GPS history."""
    data = SuggestGeofencesFromHistoryInput.model_validate(payload)
    client = client or _get_client()
    output = _generate_output(
        client,
        render_geofence_prompt(data),
        SuggestGeofencesFromHistoryOutput,
        flow="suggest_geofences_from_history",
        max_tokens=4096,
    )
    if output is None:
        raise FlowError("Gemini returned no geofence suggestions")
    return output


def summarize_device_trip(
    payload: SummarizeDeviceTripInput | dict,
    client: GenerationClient | None = None,
) -> SummarizeDeviceTripOutput:
    data = SummarizeDeviceTripInput.model_validate(payload)
    client = client or _get_client()
    output = _generate_output(
        client,
        render_trip_prompt(data),
        SummarizeDeviceTripOutput,
        flow="summarize_device_trip",
        max_tokens=1024,
    )
    if output is None:
        raise FlowError("Gemini returned no trip summary")
    return output
