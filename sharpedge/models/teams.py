"""
Sport rosters and bookmaker classification.

Each sport profile maps canonical team names (as The Odds API spells them)
to the abbreviations, nicknames and city names Polymarket titles use.
"""

from dataclasses import dataclass, field
from typing import Optional


# Bookmakers whose prices are treated as informationally efficient
SHARP_BOOKS = frozenset({
    "pinnacle",
    "betfair",
    "betfair_ex_eu",
    "betfair_ex_uk",
    "circa",
    "betcris",
    "matchbook",
})


def is_sharp_book(bookmaker: str) -> bool:
    return bookmaker.lower() in SHARP_BOOKS


@dataclass(frozen=True)
class SportProfile:
    """A sport/league the engine can poll."""
    code: str
    name: str
    odds_api_sport: str
    teams: dict[str, tuple[str, ...]] = field(default_factory=dict)


NBA = SportProfile(
    code="nba",
    name="NBA",
    odds_api_sport="basketball_nba",
    teams={
        "Atlanta Hawks": ("atl", "hawks", "atlanta"),
        "Boston Celtics": ("bos", "celtics", "boston", "cs"),
        "Brooklyn Nets": ("bkn", "nets", "brooklyn"),
        "Charlotte Hornets": ("cha", "hornets", "charlotte"),
        "Chicago Bulls": ("chi", "bulls", "chicago"),
        "Cleveland Cavaliers": ("cle", "cavaliers", "cleveland", "cavs"),
        "Dallas Mavericks": ("dal", "mavericks", "dallas", "mavs"),
        "Denver Nuggets": ("den", "nuggets", "denver", "nugs"),
        "Detroit Pistons": ("det", "pistons", "detroit"),
        "Golden State Warriors": ("gsw", "warriors", "golden state", "dubs"),
        "Houston Rockets": ("hou", "rockets", "houston"),
        "Indiana Pacers": ("ind", "pacers", "indiana"),
        "Los Angeles Clippers": ("lac", "clippers", "la clippers"),
        "Los Angeles Lakers": ("lal", "lakers", "la lakers"),
        "Memphis Grizzlies": ("mem", "grizzlies", "memphis", "grizz"),
        "Miami Heat": ("mia", "heat", "miami"),
        "Milwaukee Bucks": ("mil", "bucks", "milwaukee"),
        "Minnesota Timberwolves": ("min", "timberwolves", "minnesota", "wolves"),
        "New Orleans Pelicans": ("nop", "pelicans", "new orleans", "pels"),
        "New York Knicks": ("nyk", "knicks", "new york"),
        "Oklahoma City Thunder": ("okc", "thunder", "oklahoma city"),
        "Orlando Magic": ("orl", "magic", "orlando"),
        "Philadelphia 76ers": ("phi", "76ers", "sixers", "philadelphia"),
        "Phoenix Suns": ("phx", "suns", "phoenix"),
        "Portland Trail Blazers": ("por", "blazers", "trail blazers", "portland"),
        "Sacramento Kings": ("sac", "kings", "sacramento"),
        "San Antonio Spurs": ("sas", "spurs", "san antonio"),
        "Toronto Raptors": ("tor", "raptors", "toronto", "raps"),
        "Utah Jazz": ("uta", "jazz", "utah"),
        "Washington Wizards": ("was", "wizards", "washington"),
    },
)

NHL = SportProfile(
    code="nhl",
    name="NHL",
    odds_api_sport="icehockey_nhl",
    teams={
        "Anaheim Ducks": ("ana", "ducks", "anaheim"),
        "Boston Bruins": ("bos", "bruins", "boston"),
        "Buffalo Sabres": ("buf", "sabres", "buffalo"),
        "Calgary Flames": ("cgy", "flames", "calgary"),
        "Carolina Hurricanes": ("car", "hurricanes", "carolina", "canes"),
        "Chicago Blackhawks": ("chi", "blackhawks", "chicago"),
        "Colorado Avalanche": ("col", "avalanche", "colorado", "avs"),
        "Columbus Blue Jackets": ("cbj", "blue jackets", "columbus"),
        "Dallas Stars": ("dal", "stars", "dallas"),
        "Detroit Red Wings": ("det", "red wings", "detroit"),
        "Edmonton Oilers": ("edm", "oilers", "edmonton"),
        "Florida Panthers": ("fla", "panthers", "florida"),
        "Los Angeles Kings": ("lak", "kings", "la kings"),
        "Minnesota Wild": ("min", "wild", "minnesota"),
        "Montréal Canadiens": ("mtl", "canadiens", "habs", "montreal"),
        "Nashville Predators": ("nsh", "predators", "nashville", "preds"),
        "New Jersey Devils": ("njd", "devils", "new jersey"),
        "New York Islanders": ("nyi", "islanders", "isles"),
        "New York Rangers": ("nyr", "rangers"),
        "Ottawa Senators": ("ott", "senators", "ottawa", "sens"),
        "Philadelphia Flyers": ("phi", "flyers", "philadelphia"),
        "Pittsburgh Penguins": ("pit", "penguins", "pittsburgh", "pens"),
        "San Jose Sharks": ("sjs", "sharks", "san jose"),
        "Seattle Kraken": ("sea", "kraken", "seattle"),
        "St Louis Blues": ("stl", "blues", "st louis"),
        "Tampa Bay Lightning": ("tbl", "lightning", "tampa bay", "bolts"),
        "Toronto Maple Leafs": ("tor", "maple leafs", "leafs", "toronto"),
        "Utah Mammoth": ("uta", "mammoth", "utah"),
        "Vancouver Canucks": ("van", "canucks", "vancouver"),
        "Vegas Golden Knights": ("vgk", "golden knights", "vegas"),
        "Washington Capitals": ("wsh", "capitals", "washington", "caps"),
        "Winnipeg Jets": ("wpg", "jets", "winnipeg"),
    },
)

NFL = SportProfile(
    code="nfl",
    name="NFL",
    odds_api_sport="americanfootball_nfl",
    teams={
        "Arizona Cardinals": ("ari", "cardinals", "arizona", "cards"),
        "Atlanta Falcons": ("atl", "falcons", "atlanta"),
        "Baltimore Ravens": ("bal", "ravens", "baltimore"),
        "Buffalo Bills": ("buf", "bills", "buffalo"),
        "Carolina Panthers": ("car", "panthers", "carolina"),
        "Chicago Bears": ("chi", "bears", "chicago"),
        "Cincinnati Bengals": ("cin", "bengals", "cincinnati"),
        "Cleveland Browns": ("cle", "browns", "cleveland"),
        "Dallas Cowboys": ("dal", "cowboys", "dallas"),
        "Denver Broncos": ("den", "broncos", "denver"),
        "Detroit Lions": ("det", "lions", "detroit"),
        "Green Bay Packers": ("gb", "packers", "green bay"),
        "Houston Texans": ("hou", "texans", "houston"),
        "Indianapolis Colts": ("ind", "colts", "indianapolis"),
        "Jacksonville Jaguars": ("jax", "jaguars", "jacksonville", "jags"),
        "Kansas City Chiefs": ("kc", "chiefs", "kansas city"),
        "Las Vegas Raiders": ("lv", "raiders", "las vegas"),
        "Los Angeles Chargers": ("lac", "chargers", "la chargers"),
        "Los Angeles Rams": ("lar", "rams", "la rams"),
        "Miami Dolphins": ("mia", "dolphins", "miami"),
        "Minnesota Vikings": ("min", "vikings", "minnesota"),
        "New England Patriots": ("ne", "patriots", "new england", "pats"),
        "New Orleans Saints": ("no", "saints", "new orleans"),
        "New York Giants": ("nyg", "giants"),
        "New York Jets": ("nyj", "jets"),
        "Philadelphia Eagles": ("phi", "eagles", "philadelphia", "philly"),
        "Pittsburgh Steelers": ("pit", "steelers", "pittsburgh"),
        "San Francisco 49ers": ("sf", "49ers", "niners", "san francisco"),
        "Seattle Seahawks": ("sea", "seahawks", "seattle"),
        "Tampa Bay Buccaneers": ("tb", "buccaneers", "bucs", "tampa bay"),
        "Tennessee Titans": ("ten", "titans", "tennessee"),
        "Washington Commanders": ("was", "commanders", "washington"),
    },
)

EPL = SportProfile(
    code="epl",
    name="EPL",
    odds_api_sport="soccer_epl",
    teams={
        "Arsenal": ("ars", "gunners"),
        "Aston Villa": ("avl", "villa"),
        "Bournemouth": ("bou", "cherries"),
        "Brentford": ("bre", "bees"),
        "Brighton and Hove Albion": ("bha", "brighton", "seagulls"),
        "Burnley": ("bur", "clarets"),
        "Chelsea": ("che",),
        "Crystal Palace": ("cry", "palace"),
        "Everton": ("eve", "toffees"),
        "Fulham": ("ful", "cottagers"),
        "Leeds United": ("lee", "leeds"),
        "Liverpool": ("liv",),
        "Manchester City": ("mci", "man city"),
        "Manchester United": ("mun", "man united", "man utd"),
        "Newcastle United": ("new", "newcastle", "magpies"),
        "Nottingham Forest": ("nfo", "forest", "nottm forest"),
        "Sunderland": ("sun", "black cats"),
        "Tottenham Hotspur": ("tot", "tottenham", "spurs"),
        "West Ham United": ("whu", "west ham", "hammers"),
        "Wolverhampton Wanderers": ("wol", "wolves", "wolverhampton"),
    },
)

SPORTS: dict[str, SportProfile] = {
    profile.code: profile for profile in (NBA, NHL, NFL, EPL)
}


def get_sport(value: str) -> Optional[SportProfile]:
    """Look up a profile by code, display name or Odds API sport key."""
    value_lower = (value or "").lower()
    for profile in SPORTS.values():
        if value_lower in (profile.code, profile.name.lower(), profile.odds_api_sport):
            return profile
    return None
