"""Database layer: engine, declarative base, immutability enforcement."""
