"""Weekly Amazon objects: query rotation, PA-API client and run."""
