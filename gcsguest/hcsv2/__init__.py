"""Container spec preparation and network namespace tracking."""