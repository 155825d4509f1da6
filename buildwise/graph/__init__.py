"""Architecture graph documents and the module merge engine."""
