"""appcreds command-line interface."""
