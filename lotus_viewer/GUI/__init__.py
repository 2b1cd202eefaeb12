"""PyQt5 front end for the Lotus viewer."""
