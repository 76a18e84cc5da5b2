"""Compact binary encodings of OSM elements, tags, coordinates and reference lists."""