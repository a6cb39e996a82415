from __future__ import annotations

ALLOWED_MODULES = "math, re, json, string, itertools, functools, collections, statistics, datetime, time, random, decimal, fractions, operator, textwrap, unicodedata, heapq, bisect, copy"

SYSTEM_PROMPT = (
    "Generate valid Python code only. "
    "Define a single top-level function that takes the input value as its argument and returns the result. "
    f"Only these standard modules may be imported: {ALLOWED_MODULES}. "
    "Do not read files, access the network, define classes, or print the answer."
)

USER_PROGRAM = """{{ task }}

Input type: {{ input_shape }}
Expected output type: {{ output_shape }}
{% for example in examples %}
Example {{ loop.index }}:
Input: {{ example.input }}
Output: {{ example.output }}
{% endfor %}
Input: {{ input_json }}
Output:"""
