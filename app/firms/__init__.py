"""Public firm read API: rankings, charts, payouts, signals and incidents."""
