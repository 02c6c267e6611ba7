"""Split test projects into CI job matrices by class or by collection."""
