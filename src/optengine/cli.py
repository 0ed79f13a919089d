import argparse
import json
import logging
import sys

from .config import (
    AnalyticConfig,
    BinomialConfig,
    MonteCarloConfig,
    PDEConfig,
    Scheme,
    engine_config_from_dict,
)
from .core import CALL, PUT
from .dispatch import Pricer
from .errors import PricingError
from .products import american_option, barrier_option, european_option

logger = logging.getLogger("optengine.cli")


def _kind(s: str):
    s = s.lower()
    if s in {"call", "c"}:
        return CALL
    if s in {"put", "p"}:
        return PUT
    raise argparse.ArgumentTypeError("kind must be 'call' or 'put'")


def add_common(parser: argparse.ArgumentParser, need_sigma: bool = True):
    parser.add_argument("--S0", type=float, required=True)
    parser.add_argument("--K", type=float, required=True)
    parser.add_argument("--T", type=float, required=True, help="maturity in years")
    parser.add_argument("--r", type=float, required=True, help="risk-free rate, continuously compounded")
    if need_sigma:
        parser.add_argument("--sigma", type=float, required=True)
    else:
        parser.add_argument("--sigma", type=float, default=0.0, help="unused, solved for")
    parser.add_argument("--q", type=float, default=0.0, help="dividend yield / carry, continuous")
    parser.add_argument("--kind", type=_kind, default=CALL, help="call, put (or c, p)")
    parser.add_argument("--american", action="store_true")
    parser.add_argument("--barrier", type=float, default=None)
    parser.add_argument("--barrier-type", dest="barrier_type", default="down-and-out",
                        choices=["up-and-out", "up-and-in", "down-and-out", "down-and-in"])


def build_product(args):
    if args.barrier is not None:
        return barrier_option(args.S0, args.K, args.T, args.r, args.sigma, args.barrier,
                              args.barrier_type, q=args.q, kind=args.kind)
    make = american_option if args.american else european_option
    return make(args.S0, args.K, args.T, args.r, args.sigma, q=args.q, kind=args.kind)


def _report(pricer: Pricer, product, greeks: bool):
    if pricer.method == "monte_carlo":
        px, se = pricer.price_with_stderr(product)
        print(f"{px:.10f}  (stderr {se:.10f})")
    else:
        print(f"{pricer.price(product):.10f}")
    if greeks:
        for name, value in pricer.greeks(product).items():
            print(f"  {name:<6} {value: .8f}")


def cmd_analytic(args):
    _report(Pricer(AnalyticConfig()), build_product(args), args.greeks)


def cmd_binomial(args):
    config = BinomialConfig(steps=args.N, smoothing=args.smoothing, richardson=args.richardson)
    _report(Pricer(config), build_product(args), args.greeks)


def cmd_mc(args):
    config = MonteCarloConfig(
        paths=args.n_paths,
        steps=args.n_steps,
        seed=args.seed,
        antithetic=not args.no_antithetic,
        control_variate=not args.no_cv,
        n_workers=args.workers,
    )
    _report(Pricer(config), build_product(args), args.greeks)


def cmd_pde(args):
    config = PDEConfig(
        spot_steps=args.N_S,
        time_steps=args.N_t,
        scheme=Scheme(args.scheme),
        damping_steps=args.damping,
    )
    _report(Pricer(config), build_product(args), args.greeks)


def cmd_iv(args):
    product = build_product(args)
    engine = Pricer(AnalyticConfig()).engine
    print(f"{engine.implied_vol(product, args.price):.10f}")


def cmd_run(args):
    with open(args.config) as fh:
        config = engine_config_from_dict(json.load(fh))
    _report(Pricer(config), build_product(args), args.greeks)


def main(argv=None):
    p = argparse.ArgumentParser(prog="optengine", description="Multi-method option pricing CLI")
    p.add_argument("-v", "--verbose", action="count", default=0)
    sub = p.add_subparsers(dest="cmd", required=True)

    # Analytic
    p_an = sub.add_parser("analytic", help="closed-form price")
    add_common(p_an)
    p_an.set_defaults(func=cmd_analytic)

    # Binomial
    p_bin = sub.add_parser("binomial", help="Cox-Ross-Rubinstein lattice price")
    add_common(p_bin)
    p_bin.add_argument("--N", type=int, default=500)
    p_bin.add_argument("--smoothing", action="store_true")
    p_bin.add_argument("--richardson", action="store_true")
    p_bin.set_defaults(func=cmd_binomial)

    # Monte Carlo (GBM)
    p_mc = sub.add_parser("mc", help="Monte Carlo price under risk-neutral GBM")
    add_common(p_mc)
    p_mc.add_argument("--n-paths", dest="n_paths", type=int, default=100_000)
    p_mc.add_argument("--n-steps", dest="n_steps", type=int, default=1)
    p_mc.add_argument("--seed", type=int, default=None)
    p_mc.add_argument("--workers", type=int, default=1)
    p_mc.add_argument("--no-antithetic", action="store_true")
    p_mc.add_argument("--no-cv", action="store_true", help="plain estimator, no control variate")
    p_mc.set_defaults(func=cmd_mc)

    # PDE
    p_pde = sub.add_parser("pde", help="finite-difference price")
    add_common(p_pde)
    p_pde.add_argument("--N-S", dest="N_S", type=int, default=200)
    p_pde.add_argument("--N-t", dest="N_t", type=int, default=200)
    p_pde.add_argument("--scheme", choices=[s.value for s in Scheme],
                       default=Scheme.CRANK_NICOLSON.value)
    p_pde.add_argument("--damping", type=int, default=0, help="implicit start-up steps")
    p_pde.set_defaults(func=cmd_pde)

    # Implied vol
    p_iv = sub.add_parser("iv", help="implied volatility from a price")
    add_common(p_iv, need_sigma=False)
    p_iv.add_argument("--price", type=float, required=True)
    p_iv.set_defaults(func=cmd_iv)

    # Engine from a JSON config file
    p_run = sub.add_parser("run", help="price with an engine config file")
    add_common(p_run)
    p_run.add_argument("--config", required=True, help="JSON file with a 'method' key")
    p_run.set_defaults(func=cmd_run)

    for sp in (p_an, p_bin, p_mc, p_pde, p_run):
        sp.add_argument("--greeks", action="store_true")

    args = p.parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        args.func(args)
    except PricingError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
