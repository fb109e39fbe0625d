"""Phrases and indicators for the German phone dialogue."""

# Fixed assistant phrases
HANDOFF_MESSAGE = "Ich verbinde Sie mit einem Mitarbeiter."
HANDOFF_CONFIRM_MESSAGE = "Möchten Sie zu einem Mitarbeiter weitergeleitet werden?"
HANDOFF_DECLINED_MESSAGE = "Alles klar. Wie kann ich Ihnen sonst helfen?"
HANDOFF_REPROMPT_MESSAGE = "Bitte sagen Sie ja oder nein."
HANDOFF_FAILED_MESSAGE = "Es gibt ein technisches Problem. Bitte rufen Sie später noch einmal an."
LLM_ERROR_MESSAGE = "Es gab leider einen Fehler. Bitte sagen Sie das noch einmal."
TOOL_ERROR_MESSAGE = "Entschuldigung, da ist gerade ein technisches Problem aufgetreten. Bitte versuchen Sie es gleich noch einmal."

# Spoken on a cache miss for the first real reply when low-latency mode is on
FILLER_PHRASES = [
    "Einen Moment bitte.",
    "Ich schaue kurz nach.",
    "Alles klar.",
]

# Access denied messages for the incoming-call webhook
ACCESS_DENIED_MESSAGES = {
    "expired": "Dieses Restaurant ist derzeit nicht verfügbar. Bitte versuchen Sie es später erneut.",
    "limit_exceeded": "Das monatliche Anruflimit wurde erreicht. Bitte versuchen Sie es später erneut.",
    "default": "Dieses Restaurant ist derzeit nicht verfügbar. Bitte versuchen Sie es später erneut.",
}
CONFIGURATION_ERROR_MESSAGE = "Es gab ein Konfigurationsproblem. Bitte versuchen Sie es später erneut."

# Marker in assistant replies that the caller was not understood
MISUNDERSTANDING_MARKERS = [
    "nicht verstanden",
    "nicht richtig verstanden",
    "nicht ganz verstanden",
]

# Caller asks for a human
HANDOFF_REQUEST_PATTERN = (
    r"(mitarbeiter|menschen|einem mensch|jemand(en)? sprechen|durchstell|weiterleit|"
    r"verbinden sie|verbinde mich|berater|chef)"
)

AFFIRMATIVE_PATTERN = r"\b(ja|jep|jup|jo|klar|gerne|bitte|okay|ok|natuerlich|genau)\b"
AFFIRMATIVE_TRANSFER_PATTERN = r"\b(verbinde|verbinden|weiterleiten|weiterleite)\b"
NEGATIVE_PATTERN = r"\b(nein|nee|no|noe)\b"
NEGATIVE_PHRASES = ["lieber nicht", "auf keinen fall", "nicht noetig"]

# Reply text announcing an availability check without calling the tool
CHECK_VERB_PATTERN = r"überprüf|pr(ü|ue)f|nachseh|nachschau|schau|check"
AVAILABILITY_NOUN_PATTERN = r"verf(ü|ue)gbar|frei|tisch"

NUMBER_WORDS = {
    "ein": 1,
    "eins": 1,
    "eine": 1,
    "einer": 1,
    "zwei": 2,
    "zweit": 2,
    "drei": 3,
    "dritt": 3,
    "vier": 4,
    "viert": 4,
    "fuenf": 5,
    "funf": 5,
    "fuenft": 5,
    "funft": 5,
    "sechs": 6,
    "sechst": 6,
    "sieben": 7,
    "siebt": 7,
    "acht": 8,
    "neun": 9,
    "neunt": 9,
    "zehn": 10,
    "zehnt": 10,
    "elf": 11,
    "zwoelf": 12,
    "zwolf": 12,
    "zwoelft": 12,
    "zwolft": 12,
}
