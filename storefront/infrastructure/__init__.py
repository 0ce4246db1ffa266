"""Infrastructure layer: configuration, logging and the FakeStore gateway client."""
