"""Public trader read API: profiles and the payout leaderboard."""
