"""Report ID generation."""
import uuid


def generate_report_id() -> str:
    """Generate unique report ID."""
    return f"RPT-{uuid.uuid4().hex[:12].upper()}"
