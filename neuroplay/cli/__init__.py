"""Terminal front end for the session engine."""
