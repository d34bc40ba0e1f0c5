"""FilmRoom - game film ingestion and clip timelines for coaches"""
