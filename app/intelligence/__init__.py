"""Firm intelligence: review taxonomy and weekly incident detection."""
