"""HTTP surface shared pieces: access checks for public, cron and admin routes."""
