# src/pdmpcore/errors.py

class ConfigError(ValueError):
    """
    Configurație invalidă (x0 infezabil, v0 nul, T și maxgradeval ambele
    infinite etc.). Se ridică ÎNAINTE de primul pas al simulării.
    """


class NumericAssumptionError(ArithmeticError):
    """
    Intensitatea observată a depășit majorantul liniar g(t) în thinning.
    Înseamnă că constanta Lipschitz furnizată de model este greșită;
    nu se corectează, nu se reîncearcă.
    """
