"""Campaign dispatch and tracking services.

Token issuance, message rendering, SMTP delivery, background dispatch,
event recording, statistics and results export.
"""
