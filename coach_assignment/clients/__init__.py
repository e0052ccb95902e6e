"""HTTP clients for the auth, calendar and CRM services."""
