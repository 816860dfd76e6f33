"""teamhub.integrations — gateways to external collaborators.

Outbound HTTP calls to services this platform consumes but does not own
go through a gateway in this package, never via bare `requests` calls in
services or blueprints.

Current gateways:
  user_directory.UserDirectoryGateway — profile lookup for display fields
"""
