"""External data source integrations.

Each subdirectory is one data source with a consistent structure:

    datasources/{name}/
    ├── __init__.py       # Public API re-exports
    ├── client.py         # API URLs, constants, transport
    └── {feature}.py      # One client per endpoint family

The clients take the transport as a constructor argument so tests can pass
a fake service instead of touching the network.
"""
