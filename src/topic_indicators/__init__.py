"""Topic Indicators.

Impact and activity scores for research topics, blended from OpenAlex
bibliometrics and Wikipedia pageviews and ranked across the topic population.
"""

__version__ = "0.1.0"
