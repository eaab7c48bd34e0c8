"""Infrastructure: observability for the service itself."""
