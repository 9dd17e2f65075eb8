"""Sales-force CRM for dental supply distribution."""
