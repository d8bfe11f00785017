"""Events queued between the game server session, the UI port socket and the router."""
