"""Release and publish orchestration."""
