# Seed data for local development and the test suite
