"""Rolling update and scale verification suite for the Kafka operator"""
