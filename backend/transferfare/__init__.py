"""Transfer fare pricing service."""
