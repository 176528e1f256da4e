"""Store client, configuration persistence and time helpers"""
