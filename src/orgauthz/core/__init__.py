"""Core domain logic shared by features and transports."""
