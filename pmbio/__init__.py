"""Threaded sysfs reader for the MAX14001PMB evaluation board."""
