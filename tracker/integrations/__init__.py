"""tracker.integrations — Outbound HTTP adapters.

Every call to a remote tracker store goes through an adapter in this
package, never via bare `requests` calls in services or blueprints.

Current adapters:
  rest_data_access.RestDataAccess — DataAccess over a remote tracker's REST API
"""
