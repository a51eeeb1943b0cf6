"""
Scheduling Domain - shared time arithmetic

time_calculator.py holds the pure helpers used by availability, slot generation,
schedule exceptions and capacity-based schedules:
- HH:mm parsing and formatting
- half-open interval overlap
- inclusive day counts
- weekday numbering (0 = Sunday)
"""
