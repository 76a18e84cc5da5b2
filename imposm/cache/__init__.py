"""On-disk caches for coordinates, nodes, ways and relations, and reverse reference indexes."""