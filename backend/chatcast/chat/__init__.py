"""Real-time chat: connection registry, history, dispatch and broadcasting."""
