"""KomiKAI sign-in service: email codes, rate limits and signed sessions."""
