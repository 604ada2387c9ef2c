"""Indoor beacon presence tracking backend."""
