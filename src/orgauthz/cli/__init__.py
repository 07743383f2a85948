"""Administrative command-line interface for orgauthz."""
