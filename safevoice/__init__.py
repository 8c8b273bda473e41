"""SafeVoice report lifecycle and notification service."""
