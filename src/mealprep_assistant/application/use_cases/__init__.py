"""One module per chat-turn handler, plus the router that dispatches between them."""
