"""Feature modules: the transcode pipeline and the operation log."""
