"""structedit - schema-directed editing of structured report sections.

Field path resolution, integrity guarding and change tracking for the nested
``structured_data`` documents behind clinical assessment report sections.
"""

__version__ = "0.1.0"
