"""Station and destination ids shared by the tests."""

STATION_ID = "monastir-main-station"
SOUSSE = "station-sousse"
MAHDIA = "station-mahdia"
TUNIS = "station-tunis"
