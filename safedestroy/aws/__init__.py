"""AWS access: client factory, credential validation and the provider gateway."""
