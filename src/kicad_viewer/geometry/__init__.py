"""Points, boxes, transforms and per-entity bounds."""
