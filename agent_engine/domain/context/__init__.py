# This module handles conversation context
#
# +---------------------------+
# |   Conversation Memory     |   (Per run, append-only)
# |---------------------------|
# | User prompt               |
# | Assistant tool requests   |
# | Tool results / errors     |
# | Final answer              |
# +---------------------------+
#         |
#         v  snapshot()
#   [Model backend decides next action]
