"""Message types exchanged with the jogging controller."""
