"""Treasury services: custody, registry, provisioning, signing and dispatch."""
