"""VigiTracker MCP Server: the AI flows exposed as Model Context Protocol tools."""

from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

from mcp.server.fastmcp import FastMCP

from vigitracker import api_tracker, flows, sample_data

# Initialize FastMCP server
mcp = FastMCP(
    "VigiTracker Flows",
    instructions=(
        "You are a developer console for the VigiTracker fleet tracker. "
        "Each tool runs one of the app's AI flows against Google Gemini: the SOS "
        "emergency dispatcher, the device activity report, geofence suggestions "
        "from GPS history and the trip summarizer. SMS, WhatsApp and email sends "
        "made by the SOS flow are simulated and only logged. Use flow_usage to "
        "see how many Gemini and Firebase calls have been made."
    ),
)

api_tracker.init_db()


def _error(e: Exception) -> dict:
    return {"error": str(e), "type": type(e).__name__}


# ---------------------------------------------------------------------------
# Tool 1: SOS Emergency
# ---------------------------------------------------------------------------
@mcp.tool()
def handle_sos_emergency(latitude: float, longitude: float, message: str = "") -> dict:
    """Run the SOS flow: alert the emergency contacts and return the confirmation.

    Args:
        latitude: Latitude of the emergency location
        longitude: Longitude of the emergency location
        message: Optional message from the user
    """
    try:
        result = flows.handle_sos_emergency({
            "latitude": latitude,
            "longitude": longitude,
            "message": message or None,
        })
        return result.model_dump()
    except Exception as e:
        return _error(e)


# ---------------------------------------------------------------------------
# Tool 2: Device Report
# ---------------------------------------------------------------------------
@mcp.tool()
def generate_device_report(device_id: str, user_id: str, timeframe: str = "30d") -> dict:
    """Generate a one-paragraph activity report for a device.

    Args:
        device_id: Device ID, e.g. 'dev-001'
        user_id: Owner's user ID
        timeframe: Reporting window such as '7d' or '30d'
    """
    try:
        result = flows.generate_device_report({
            "device_id": device_id,
            "user_id": user_id,
            "timeframe": timeframe,
        })
        return result.model_dump()
    except Exception as e:
        return _error(e)


# ---------------------------------------------------------------------------
# Tool 3: Geofence Suggestions
# ---------------------------------------------------------------------------
@mcp.tool()
def suggest_geofences(device_id: str, gps_history: list[dict] | None = None) -> dict:
    """Suggest 3 to 5 geofences from GPS history.

    Without gps_history the device's recorded sample trips are used.

    Args:
        device_id: Device ID, e.g. 'dev-001'
        gps_history: Optional list of {latitude, longitude, timestamp} points
    """
    history = gps_history or sample_data.gps_history(sample_data.trips_for_device(device_id))
    if not history:
        return {"error": f"No GPS history for device {device_id}"}
    try:
        result = flows.suggest_geofences_from_history({
            "device_id": device_id,
            "gps_history": history,
        })
        return result.model_dump()
    except Exception as e:
        return _error(e)


# ---------------------------------------------------------------------------
# Tool 4: Trip Summary
# ---------------------------------------------------------------------------
@mcp.tool()
def summarize_trip(trip_id: str) -> dict:
    """Summarize a recorded trip from its GPS path.

    Args:
        trip_id: Trip ID, e.g. 'trip-001'
    """
    trip = sample_data.get_trip(trip_id)
    if trip is None:
        known = [t.id for t in sample_data.TRIPS]
        return {"error": f"Trip '{trip_id}' not found", "available": known}
    try:
        result = flows.summarize_device_trip({
            "device_id": trip.device_id,
            "gps_data": sample_data.trip_gps_points(trip),
        })
        return {"trip_id": trip.id, **result.model_dump()}
    except Exception as e:
        return _error(e)


# ---------------------------------------------------------------------------
# Tool 5: Usage
# ---------------------------------------------------------------------------
@mcp.tool()
def flow_usage(hours: int = 24, recent: int = 20) -> dict:
    """Gemini and Firebase call counts and latency over the last few hours.

    Args:
        hours: Window for the summary (default 24)
        recent: Number of most recent calls to include (default 20)
    """
    return {
        "summary": api_tracker.get_summary(hours=hours),
        "recent": api_tracker.get_recent(limit=recent),
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main():
    """Run the VigiTracker MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
