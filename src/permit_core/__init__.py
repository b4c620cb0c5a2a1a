"""In-process aggregate cache and async event emitter for the permit front end."""

__version__ = "0.1.0"
