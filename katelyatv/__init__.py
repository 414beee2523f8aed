"""KatelyaTV user-data service: per-user storage over Redis or Kvrocks."""
