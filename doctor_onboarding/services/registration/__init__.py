"""Doctor registration wizard services: validation gate, uploads, submission, sessions."""
