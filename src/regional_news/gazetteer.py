"""
Place-name data for the target state (Kentucky) and the other US states used to
disqualify look-alike matches.
"""

from __future__ import annotations

from typing import Dict, List

TARGET_STATE_NAME = "Kentucky"
TARGET_STATE_CODE = "KY"

KY_COUNTIES: List[str] = [
    "Adair", "Allen", "Anderson", "Ballard", "Barren", "Bath", "Bell", "Boone",
    "Bourbon", "Boyd", "Boyle", "Bracken", "Breathitt", "Breckinridge", "Bullitt",
    "Butler", "Caldwell", "Calloway", "Campbell", "Carlisle", "Carroll", "Carter",
    "Casey", "Christian", "Clark", "Clay", "Clinton", "Crittenden", "Cumberland",
    "Daviess", "Edmonson", "Elliott", "Estill", "Fayette", "Fleming", "Floyd",
    "Franklin", "Fulton", "Gallatin", "Garrard", "Grant", "Graves", "Grayson",
    "Green", "Greenup", "Hancock", "Hardin", "Harlan", "Harrison", "Hart",
    "Henderson", "Henry", "Hickman", "Hopkins", "Jackson", "Jefferson",
    "Jessamine", "Johnson", "Kenton", "Knott", "Knox", "Larue", "Laurel",
    "Lawrence", "Lee", "Leslie", "Letcher", "Lewis", "Lincoln", "Livingston",
    "Logan", "Lyon", "Madison", "Magoffin",
    "Marion", "Marshall", "Martin", "Mason", "McCracken", "McCreary", "McLean",
    "Meade", "Menifee", "Mercer",
    "Metcalfe", "Monroe", "Montgomery", "Morgan", "Muhlenberg", "Nelson",
    "Nicholas", "Ohio", "Oldham", "Owen", "Owsley", "Pendleton", "Perry", "Pike",
    "Powell", "Pulaski", "Robertson", "Rockcastle", "Rowan", "Russell", "Scott",
    "Shelby", "Simpson", "Spencer", "Taylor", "Todd", "Trigg", "Trimble", "Union",
    "Warren", "Washington", "Wayne", "Webster", "Whitley", "Wolfe", "Woodford",
]

# Lowercase city name -> county. Multi-word names are matched before shorter ones.
KY_CITY_COUNTY: Dict[str, str] = {
    "alexandria": "Campbell",
    "ashland": "Boyd",
    "bardstown": "Nelson",
    "benton": "Marshall",
    "berea": "Madison",
    "bowling green": "Warren",
    "burlington": "Boone",
    "cadiz": "Trigg",
    "calvert city": "Marshall",
    "campbellsville": "Taylor",
    "central city": "Muhlenberg",
    "columbia": "Adair",
    "corbin": "Whitley",
    "covington": "Kenton",
    "cynthiana": "Harrison",
    "danville": "Boyle",
    "dawson springs": "Hopkins",
    "eddyville": "Lyon",
    "elizabethtown": "Hardin",
    "erlanger": "Kenton",
    "flemingsburg": "Fleming",
    "florence": "Boone",
    "fort knox": "Hardin",
    "fort mitchell": "Kenton",
    "fort thomas": "Campbell",
    "frankfort": "Franklin",
    "franklin": "Simpson",
    "georgetown": "Scott",
    "glasgow": "Barren",
    "grayson": "Carter",
    "greenville": "Muhlenberg",
    "harlan": "Harlan",
    "harrodsburg": "Mercer",
    "hazard": "Perry",
    "henderson": "Henderson",
    "hopkinsville": "Christian",
    "hyden": "Leslie",
    "independence": "Kenton",
    "inez": "Martin",
    "jackson": "Breathitt",
    "jeffersontown": "Jefferson",
    "la grange": "Oldham",
    "lawrenceburg": "Anderson",
    "leitchfield": "Grayson",
    "lexington": "Fayette",
    "london": "Laurel",
    "louisa": "Lawrence",
    "louisville": "Jefferson",
    "madisonville": "Hopkins",
    "manchester": "Clay",
    "mayfield": "Graves",
    "maysville": "Mason",
    "middlesboro": "Bell",
    "monticello": "Wayne",
    "morehead": "Rowan",
    "morgantown": "Butler",
    "mount sterling": "Montgomery",
    "mount washington": "Bullitt",
    "murray": "Calloway",
    "newport": "Campbell",
    "nicholasville": "Jessamine",
    "oak grove": "Christian",
    "olive hill": "Carter",
    "owensboro": "Daviess",
    "paducah": "McCracken",
    "paintsville": "Johnson",
    "paris": "Bourbon",
    "pikeville": "Pike",
    "pineville": "Bell",
    "prestonsburg": "Floyd",
    "princeton": "Caldwell",
    "radcliff": "Hardin",
    "richmond": "Madison",
    "russellville": "Logan",
    "salyersville": "Magoffin",
    "scottsville": "Allen",
    "shelbyville": "Shelby",
    "shepherdsville": "Bullitt",
    "shively": "Jefferson",
    "somerset": "Pulaski",
    "st matthews": "Jefferson",
    "stanton": "Powell",
    "tompkinsville": "Monroe",
    "versailles": "Woodford",
    "west liberty": "Morgan",
    "whitesburg": "Letcher",
    "williamsburg": "Whitley",
    "winchester": "Clark",
}

# Names shared with large out-of-state cities, universities or brands. These
# always need a locative cue next to the mention.
HIGH_AMBIGUITY_CITIES = frozenset(
    {
        "lexington",
        "louisville",
        "georgetown",
        "franklin",
        "winchester",
        "london",
        "paris",
        "richmond",
        "florence",
        "columbia",
        "jackson",
        "princeton",
        "independence",
        "alexandria",
        "newport",
        "henderson",
        "murray",
        "manchester",
        "burlington",
        "ashland",
        "glasgow",
        "versailles",
    }
)

US_STATE_NAMES: List[str] = [
    "Alabama", "Alaska", "Arizona", "Arkansas", "California", "Colorado",
    "Connecticut", "Delaware", "Florida", "Georgia", "Hawaii", "Idaho",
    "Illinois", "Indiana", "Iowa", "Kansas", "Kentucky", "Louisiana", "Maine",
    "Maryland", "Massachusetts", "Michigan", "Minnesota", "Mississippi",
    "Missouri", "Montana", "Nebraska", "Nevada", "New Hampshire", "New Jersey",
    "New Mexico", "New York", "North Carolina", "North Dakota", "Ohio",
    "Oklahoma", "Oregon", "Pennsylvania", "Rhode Island", "South Carolina",
    "South Dakota", "Tennessee", "Texas", "Utah", "Vermont", "Virginia",
    "Washington", "West Virginia", "Wisconsin", "Wyoming",
]

US_STATE_CODES: List[str] = [
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA", "HI", "ID", "IL",
    "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN", "MS", "MO", "MT",
    "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI",
    "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY", "DC",
]

OTHER_STATE_NAMES = [name for name in US_STATE_NAMES if name != TARGET_STATE_NAME]
OTHER_STATE_CODES = [code for code in US_STATE_CODES if code != TARGET_STATE_CODE]

_COUNTY_LOOKUP = {name.lower(): name for name in KY_COUNTIES}


def canonical_county(value: str | None) -> str | None:
    """Map free text such as "fayette county" to the gazetteer spelling, or None."""
    if not value:
        return None
    cleaned = value.strip().lower()
    for suffix in (" counties", " county", " co."):
        if cleaned.endswith(suffix):
            cleaned = cleaned[: -len(suffix)].strip()
    return _COUNTY_LOOKUP.get(cleaned)


def county_order(name: str) -> int:
    return KY_COUNTIES.index(name)
