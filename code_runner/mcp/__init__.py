"""Model Context Protocol front end."""
