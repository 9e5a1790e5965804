"""Decode DB08 dynasty save containers and calibrate their table layouts."""
