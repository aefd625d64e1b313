"""elfcopyflat core: data models, errors and the flattening pipeline."""
