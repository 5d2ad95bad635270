"""
Analysis perspectives.

Each perspective is one fixed analytical lens: its own instruction text,
the violation type it reports and the articles it typically cites. They
share no state and are applied independently to the same record.
"""

from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class Perspective:
    name: str
    violation_type: str
    default_articles: Tuple[str, ...]
    instructions: str


RESPONSE_SHAPE = """Réponds UNIQUEMENT en JSON:
{{
  "incident_detected": boolean,
  "type": "{violation_type}",
  "severity": "none" | "low" | "medium" | "high" | "critical",
  "evidence": ["citation exacte du texte prouvant le problème"],
  "description": "description factuelle",
  "articles_violes": [{articles}],
  "confidence": 0-100{extra_fields}
}}"""


def _perspective(
    name: str,
    violation_type: str,
    articles: Tuple[str, ...],
    body: str,
    extra_fields: str = "",
) -> Perspective:
    shape = RESPONSE_SHAPE.format(
        violation_type=violation_type,
        articles=", ".join(f'"{a}"' for a in articles),
        extra_fields=extra_fields,
    )
    return Perspective(
        name=name,
        violation_type=violation_type,
        default_articles=articles,
        instructions=f"{body.strip()}\n\n{shape}",
    )


COLLABORATION = _perspective(
    "collaboration",
    "collaboration",
    ("Art. 406 CC", "Art. 394 CC"),
    """
Tu es un expert en droit de la protection de l'adulte. Analyse cet email UNIQUEMENT sous l'angle de la COLLABORATION curateur-pupille.

CONTEXTE: Curatelle VOLONTAIRE de gestion et représentation. Le curateur N'A PAS tous les droits, il DOIT collaborer.

RECHERCHE SPÉCIFIQUE:
- Le pupille a-t-il été consulté avant une action?
- Y a-t-il des décisions prises SANS le pupille?
- Le pupille est-il exclu de discussions le concernant?
- Le curateur agit-il unilatéralement?
""",
)

CONSENTEMENT = _perspective(
    "consentement",
    "consentement",
    ("Art. 30 LPD", "Art. 13 Cst."),
    """
Tu es un expert en protection des données. Analyse cet email UNIQUEMENT sous l'angle du CONSENTEMENT et de la confidentialité.

CONTEXTE: Curatelle VOLONTAIRE. Le pupille conserve ses droits, y compris sur ses données personnelles.

RECHERCHE SPÉCIFIQUE:
- Des informations personnelles ont-elles été partagées avec des tiers?
- Y a-t-il eu échange d'infos SANS l'accord explicite du pupille?
- Le secret médical ou professionnel a-t-il été violé?
- Des documents confidentiels ont-ils été transmis sans consentement?
""",
    ',\n  "third_parties_involved": ["nom du tiers"]',
)

DOCUMENTS = _perspective(
    "documents",
    "document_perdu",
    ("Art. 26 PA", "Art. 29 Cst."),
    """
Tu es un expert en procédure administrative. Analyse cet email pour détecter des DOCUMENTS PERDUS ou non transmis.

CONTEXTE: Dans une curatelle, tous les documents doivent être transmis au pupille.

RECHERCHE SPÉCIFIQUE:
- Mention de courrier recommandé perdu ou non reçu?
- Décision de tribunal/autorité non transmise?
- Documents officiels disparus ou non retrouvés?
- Références à des pièces manquantes?
""",
    ',\n  "documents_mentioned": ["type de document"]',
)

DELAIS = _perspective(
    "delais",
    "delai",
    ("Art. 29 Cst.", "Art. 46a PA"),
    """
Tu es un expert en procédure administrative. Analyse cet email pour détecter des DÉLAIS non respectés.

CONTEXTE: Les administrations ont des délais légaux à respecter.

RECHERCHE SPÉCIFIQUE:
- Délais de réponse dépassés?
- Promesses non tenues dans les temps?
- Retards administratifs répétés?
- Questions restées sans réponse pendant longtemps?
""",
    ',\n  "delays_found": ["délai non respecté"]',
)

COMPORTEMENT = _perspective(
    "comportement",
    "comportement",
    ("Art. 7 Cst.",),
    """
Tu es un psychologue expert. Analyse cet email pour détecter des COMPORTEMENTS inappropriés.

CONTEXTE: Le curateur doit respecter la dignité du pupille.

RECHERCHE SPÉCIFIQUE:
- Ton condescendant ou irrespectueux?
- Intimidation ou pression psychologique?
- Infantilisation du pupille?
- Manque de considération pour l'avis du pupille?
- Mensonges ou tromperies?
""",
    ',\n  "behavior_type": "condescendant" | "intimidation" | "mensonge" | "autre"',
)


DEFAULT_PERSPECTIVES: List[Perspective] = [
    COLLABORATION,
    CONSENTEMENT,
    DOCUMENTS,
    DELAIS,
    COMPORTEMENT,
]


def perspective_names(perspectives: List[Perspective] = DEFAULT_PERSPECTIVES) -> List[str]:
    return [p.name for p in perspectives]
