from __future__ import annotations

# Sources written to the candidates directory, one file each.
API_SOURCES = ["adzuna", "reed"]
GATHER_SOURCES = ["linkedin", "uiuxjobsboard", "workinstartups", "indeed"]
CANDIDATE_SOURCES = API_SOURCES + GATHER_SOURCES

ADZUNA_QUERIES = [
    ("ux designer", "manchester"),
    ("product designer", "manchester"),
    ("ux designer", "uk"),
    ("product designer", "uk"),
]

REED_QUERIES = [
    ("ux designer", "manchester"),
    ("product designer", "manchester"),
    ("ux designer", "remote"),
    ("product designer", "remote"),
]

TARGET_METRO_TERMS = [
    "manchester",
    "salford",
    "stockport",
    "bolton",
    "oldham",
    "rochdale",
    "bury",
    "wigan",
    "trafford",
    "altrincham",
]

HOME_COUNTRY_TERMS = [
    "uk",
    "united kingdom",
    "england",
    "great britain",
    "gb",
]

OVERSEAS_TERMS = [
    "us",
    "usa",
    "united states",
    "us only",
    "us-based",
    "canada",
    "europe",
    "emea",
    "eu only",
    "germany",
    "netherlands",
    "spain",
    "portugal",
    "poland",
    "india",
    "australia",
    "new york",
    "san francisco",
]

REMOTE_TERMS = ["remote", "work from home", "wfh", "anywhere"]

RECRUITER_SIGNALS = [
    "recruiter",
    "recruitment",
    "agency",
    "staffing",
    "talent partner",
    "headhunter",
    "our client",
    "on behalf of",
]

RECRUITER_AGENCIES = [
    "hays",
    "michael page",
    "robert half",
    "zebra people",
    "oliver bernard",
    "maxwell bond",
    "gravitas",
    "tenth revolution",
    "teksystems",
    "opus recruitment",
    "page 1 recruitment",
    "jobgether",
    "huzzle",
    "technet",
]

CONTRACT_TERMS = [
    "contractor",
    "contract role",
    "contract position",
    "freelance",
    "part time",
    "part-time",
    "day rate",
    "per day",
    "fixed term",
    "fixed-term",
    "temporary",
    "maternity cover",
]

ENGINEERING_TERMS = [
    "engineer",
    "developer",
    "software",
    "frontend",
    "front-end",
    "full stack",
    "devops",
]

PHYSICAL_PRODUCT_TERMS = [
    "industrial design",
    "furniture",
    "mechanical",
    "packaging design",
    "fashion",
    "footwear",
    "cad",
]

PRODUCT_MANAGEMENT_TERMS = ["product manager", "product owner", "product management"]

SALES_TERMS = ["sales", "account manager", "business development"]

TOO_SENIOR_TERMS = ["lead", "principal", "head of", "director", "vp", "chief"]

UI_EMPHASIS_PHRASES = [
    "visual designer",
    "pixel perfect",
    "pixel-perfect",
    "strong ui focus",
    "ui focused",
    "ui-focused",
]

UI_TERMS = [
    "ui",
    "visual",
    "pixel",
    "typography",
    "colour",
    "color",
    "iconography",
    "illustration",
    "branding",
    "animation",
]

UX_TERMS = [
    "ux",
    "user experience",
    "user research",
    "usability",
    "journey",
    "wireframe",
    "prototype",
    "discovery",
    "information architecture",
]

DENYLISTED_EMPLOYERS = [
    "bet365",
    "flutter",
    "entain",
    "paddy power",
    "betfair",
    "william hill",
    "sky betting",
]

WRONG_DISCIPLINE_TERMS = [
    "service designer",
    "digital designer",
    "content designer",
    "graphic designer",
    "motion designer",
    "instructional designer",
]

ACCEPTED_TITLES = [
    "ux designer",
    "user experience designer",
    "product designer",
    "ux researcher",
    "ux/ui designer",
    "ux / ui designer",
    "ux ui designer",
    "interaction designer",
]

# Scorer vocabularies: (term, points); each family is capped in scoring.py.
DOMAIN_FIT_TERMS = [
    ("e-commerce", 3),
    ("ecommerce", 3),
    ("retail", 2),
    ("checkout", 2),
    ("conversion", 2),
    ("saas", 2),
    ("b2b", 1),
    ("marketplace", 2),
    ("fintech", 1),
]

RESEARCH_TERMS = [
    ("user research", 3),
    ("usability testing", 2),
    ("user testing", 2),
    ("user interviews", 2),
    ("discovery", 2),
    ("research", 1),
]

CRAFT_TERMS = [
    ("figma", 2),
    ("prototyp", 2),
    ("design system", 2),
    ("wireframe", 1),
    ("interaction design", 2),
    ("accessibility", 1),
    ("user journey", 1),
]

COLLABORATION_TERMS = [
    ("cross-functional", 1),
    ("product manager", 1),
    ("engineers", 1),
    ("stakeholder", 1),
    ("workshop", 1),
]

SALARY_TIERS = [
    (80000, 3),
    (65000, 2),
    (50000, 1),
]

UI_HEAVY_TITLE_TERMS = ["ui designer", "ui/ux", "ui / ux", "visual"]
