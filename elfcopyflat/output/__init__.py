"""elfcopyflat output: image sinks and console rendering."""
