"""Services for webhook verification, persistence and reconciliation."""
