from typing import NewType, TypedDict

HttpPath = NewType('HttpPath', str)


class ColorAnalysis(TypedDict):
  average_color: str
  dominant_color: str


class AnalysedFile(ColorAnalysis):
  file: str
