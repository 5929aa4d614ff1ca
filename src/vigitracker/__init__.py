"""VigiTracker: fleet tracking dashboard with AI-assisted SOS, reports and geofencing."""
