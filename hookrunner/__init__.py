"""hookrunner - run local commands from webhook requests."""
__version__ = "1.0.0"
