"""
Pure availability computation.

Nothing in this package touches the database, the cache or the clock; every
function works on immutable rule snapshots and aware UTC datetimes.
"""
